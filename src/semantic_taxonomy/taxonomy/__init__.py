"""Topic tree models, resolution and seeding."""
