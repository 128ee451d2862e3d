"""Cloud service clients."""
