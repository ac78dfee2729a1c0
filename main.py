"""
Review Trust - Web Server Entry Point
=====================================

Run this to start the review API:
    python main.py

Then open http://127.0.0.1:8000/docs in your browser.

To deliver queued notifications continuously:
    python run_relay.py
"""

import uvicorn

from reviewtrust.infrastructure.config import get_settings


def main():
    """Start the web server."""
    print("\n" + "=" * 50)
    print("   Review Trust - Anonymous Review API")
    print("=" * 50)
    print("\n   Starting server at http://127.0.0.1:8000")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "reviewtrust.web.app:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
        log_level=get_settings().log_level.lower()
    )


if __name__ == "__main__":
    main()
