"""
Brand Hub - Web Server Entry Point
==================================

Run this to start the JSON API:
    python main.py

Sign in at http://127.0.0.1:8000/api/google-business/auth/login

To check the Business Profile connection from a terminal:
    python run_diagnostics.py
"""

import os

import uvicorn


def main():
    """Start the web server."""
    host = os.getenv("HOST", "127.0.0.1")
    port = int(os.getenv("PORT", "8000"))

    print("\n" + "=" * 50)
    print("   Brand Hub - Business Profile API")
    print("=" * 50)
    print(f"\n   Starting server at http://{host}:{port}")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "brandhub.web.app:app",
        host=host,
        port=port,
        reload=os.getenv("APP_ENV", "development") != "production",
        log_level="info"
    )


if __name__ == "__main__":
    main()
