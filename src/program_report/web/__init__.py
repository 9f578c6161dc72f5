"""Flask JSON API for Program Report."""
