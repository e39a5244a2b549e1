"""Risk agents - device/location validation and behavioral scoring."""
