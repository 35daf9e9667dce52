#!/usr/bin/env python3
"""
Comfy Prompt Vault Launcher

Checks dependencies and starts the HTTP API server.
"""

import importlib.util
import sys

from promptvault.config import get_settings

# import name -> distribution name
REQUIRED_PACKAGES = {
    'fastapi': 'fastapi',
    'uvicorn': 'uvicorn[standard]',
    'sqlalchemy': 'sqlalchemy',
    'multipart': 'python-multipart',
}


def missing_dependencies():
    return [dist for module, dist in REQUIRED_PACKAGES.items() if importlib.util.find_spec(module) is None]


def main():
    missing = missing_dependencies()
    if missing:
        print(f"❌ Missing dependencies: {', '.join(missing)}")
        print("📦 Install with: pip install -e .")
        sys.exit(1)

    settings = get_settings()
    print(f"🗄️ Comfy Prompt Vault on http://localhost:{settings.port}{settings.api_prefix}")
    print(f"📁 Database: {settings.database_url}")

    import uvicorn
    try:
        uvicorn.run("web_interface:app", host=settings.host, port=settings.port,
                    reload=True, log_level=settings.log_level.lower())
    except KeyboardInterrupt:
        print("\n👋 Server stopped")


if __name__ == "__main__":
    main()
