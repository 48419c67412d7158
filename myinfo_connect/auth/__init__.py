"""OAuth2, key handling and person data retrieval for MyInfo."""
