"""Holiday lookup adapters and day classification."""
