"""OAI-PMH protocol engine: validation, dispatch, flow control and rendering."""
