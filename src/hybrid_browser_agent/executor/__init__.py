"""External executor protocol, link and process."""
