"""Engine — central client, models, repositories and services."""
