"""HTTP routes and FastAPI dependencies."""
