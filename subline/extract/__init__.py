"""Audio extraction through an external downloader with strategy fallback."""
