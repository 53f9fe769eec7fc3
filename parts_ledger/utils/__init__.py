"""Pure helpers shared across layers."""
