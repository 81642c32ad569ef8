"""Group expense settlement: engine, service and terminal front-end."""
