"""Bot output log — the sink every supervised process streams into."""
