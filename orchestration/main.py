"""
Roleplay Narrator — Entry Point

Thin wrapper that delegates to bot/client.py. Kept out of the bot/
package so running it does not shadow that package on sys.path.

To run: python orchestration/main.py
"""

from bot.client import run

if __name__ == "__main__":
    run()
