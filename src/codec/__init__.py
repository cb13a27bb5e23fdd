"""Extension table and the header obfuscation transform."""
