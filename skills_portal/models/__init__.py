"""Models — enums and pydantic schemas."""
