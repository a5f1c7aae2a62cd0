"""Business logic for the device protocol and operator actions."""
