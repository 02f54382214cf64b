"""
NexusSales - Web Server Entry Point
===================================

Run this to start the web dashboard:
    python main.py

Then open http://127.0.0.1:8000 in your browser.

To reply to an exported comment sheet from the terminal:
    python run_replies.py comments.xlsx
"""

import sys
from pathlib import Path

import uvicorn

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent))


def main():
    """Start the web server."""
    print("\n" + "=" * 50)
    print("   NexusSales - Web Dashboard")
    print("=" * 50)
    print("\n   Starting server at http://127.0.0.1:8000")
    print("   Press Ctrl+C to stop\n")

    uvicorn.run(
        "nexus_sales.web.app:app",
        host="127.0.0.1",
        port=8000,
        reload=False,
        log_level="info"
    )


if __name__ == "__main__":
    main()
