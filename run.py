#!/usr/bin/env python3
"""
Convocate - Entry Point
Run the Flask application
"""

import logging

from convocate.main import create_app
from convocate.config import get_config_manager

if __name__ == "__main__":
    app = create_app()
    config_manager = get_config_manager()
    config = config_manager.config

    logging.basicConfig(
        level=getattr(logging, config.logging.level.upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )

    host = config.server.host
    port = config.server.port
    debug = config.server.debug

    print(f"\n{'='*50}")
    print("  Convocate - Chat Persona Practice Service")
    print(f"{'='*50}")
    print(f"  Server: http://{host}:{port}")
    print(f"  Ollama: {config.ollama.base_url}")
    for key, value in config_manager.get_summary().items():
        print(f"  {key}: {value}")
    print(f"  Debug Mode: {debug}")
    print(f"{'='*50}\n")

    app.run(host=host, port=port, debug=debug, threaded=True)
