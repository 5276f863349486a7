"""Domain layer: business logic of the portal trust core."""
