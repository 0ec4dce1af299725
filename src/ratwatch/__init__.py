"""Rat Watch: scheduled accountability watches for chat communities."""
