from .api_server import app, initialize_dependencies, start_server

__all__ = ['app', 'initialize_dependencies', 'start_server']
