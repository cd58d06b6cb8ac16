"""Drawing workflow services."""
