"""Single version source."""

VERSION = "1.0.0"
