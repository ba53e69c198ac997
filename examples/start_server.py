"""
TabGraph Router Server Entry Point

Starts the FastAPI server for the tab query router.

Usage:
    python examples/start_server.py
"""

import sys
from pathlib import Path

# Add src to path so we can import tabgraph_router
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from tabgraph_router.config import get_settings, setup_logging


def main():
    """Start the FastAPI server."""

    print("=" * 80)
    print("TabGraph Router Server")
    print("=" * 80)
    print()

    # Verify configuration
    try:
        settings = get_settings()
        setup_logging(settings.log_level)
        print("✓ Configuration loaded")
        print(f"  - Model endpoint: {settings.model_api_base_url}")
        print(f"  - Compact model: {settings.compact_model}")
        print(f"  - Reasoning model: {settings.reasoning_model} (CPU: {settings.reasoning_model_cpu})")
        print(f"  - Remote tier: {'enabled' if settings.remote_tier_enabled else 'disabled'}")
        print()
    except Exception as e:
        print(f"✗ Configuration error: {e}")
        print()
        print("Settings are read from TABGRAPH_* environment variables or a .env file.")
        sys.exit(1)

    # Start server
    print("Starting FastAPI server...")
    print("Server will be available at: http://localhost:8000")
    print("API documentation: http://localhost:8000/docs")
    print()
    print("Press Ctrl+C to stop the server")
    print("=" * 80)
    print()

    import uvicorn
    from tabgraph_router.server.app import create_app

    uvicorn.run(
        create_app(),
        host="0.0.0.0",
        port=8000,
        log_level=settings.log_level.lower(),
        reload=False,
    )


if __name__ == "__main__":
    try:
        main()
    except KeyboardInterrupt:
        print("\n\nServer stopped by user")
        sys.exit(0)
    except Exception as e:
        print(f"\n\n✗ Server error: {e}")
        sys.exit(1)
