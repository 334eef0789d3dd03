"""Pixel CLI entrypoint."""

from pixel.cli import app

if __name__ == "__main__":
    app()
