"""Ocean Stella - Account and admin user management endpoints."""
