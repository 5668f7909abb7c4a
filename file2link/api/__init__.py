"""HTTP surface of the server process."""
