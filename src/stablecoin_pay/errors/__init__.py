"""Payment error hierarchy."""
