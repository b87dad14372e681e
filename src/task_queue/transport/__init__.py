"""External collaborators called by the engine: mail and webhooks."""
