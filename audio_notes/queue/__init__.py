"""Change-event consumption, routing, and the retry scheduler."""
