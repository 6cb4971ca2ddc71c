"""Level Up backend API client, response types and page loaders."""
