"""Install-plan application."""
