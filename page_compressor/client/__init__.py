"""Client runtime: toggle state, messaging, page sessions and the browser driver."""
