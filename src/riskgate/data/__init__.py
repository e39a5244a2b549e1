"""Data layer - schemas for requests, principals and risk."""
