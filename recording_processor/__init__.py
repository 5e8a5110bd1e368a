"""Upload, transcribe and analyze site recordings into tasks, materials and offers."""
