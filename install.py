#!/usr/bin/env python3
"""Cross-platform install script for telegram-gemini-relay.

Usage:
    python install.py          # Production install
    python install.py --dev    # Development install (includes test tools)
"""

import os
import platform
import shutil
import subprocess
import sys

MIN_PYTHON = (3, 11)


def main() -> None:
    # 1. Check Python version
    if sys.version_info < MIN_PYTHON:
        sys.exit(
            f"Error: Python {MIN_PYTHON[0]}.{MIN_PYTHON[1]}+ is required. "
            f"You have {sys.version_info.major}.{sys.version_info.minor}."
        )

    print(f"Python {sys.version_info.major}.{sys.version_info.minor} detected. OK.")

    dev = "--dev" in sys.argv
    project_dir = os.path.dirname(os.path.abspath(__file__))
    venv_dir = os.path.join(project_dir, ".venv")
    is_windows = platform.system() == "Windows"

    bin_dir = "Scripts" if is_windows else "bin"
    pip = os.path.join(venv_dir, bin_dir, "pip")

    # 2. Create virtual environment
    if not os.path.isdir(venv_dir):
        print("Creating virtual environment...")
        subprocess.check_call([sys.executable, "-m", "venv", venv_dir])
    else:
        print("Virtual environment already exists.")

    # 3. Upgrade pip
    print("Upgrading pip...")
    subprocess.check_call([pip, "install", "--upgrade", "pip"])

    # 4. Install project
    if dev:
        print("Installing telegram-gemini-relay in development mode...")
        subprocess.check_call([pip, "install", "-e", ".[dev]"], cwd=project_dir)
    else:
        print("Installing telegram-gemini-relay...")
        subprocess.check_call([pip, "install", "."], cwd=project_dir)

    # 5. Check for ffmpeg (needed by /speech)
    if shutil.which("ffmpeg"):
        print("ffmpeg found. OK.")
    else:
        print("Warning: ffmpeg not found in PATH; /speech answers will fail until it is installed")
        print("         (or `ffmpeg_path` is set in config.yaml).")

    # 6. Create data directory
    data_dir = os.path.join(project_dir, "data")
    os.makedirs(data_dir, exist_ok=True)
    gitkeep = os.path.join(data_dir, ".gitkeep")
    if not os.path.exists(gitkeep):
        with open(gitkeep, "w"):
            pass

    # 7. Copy config files if missing
    for src, dst in [("config.example.yaml", "config.yaml"), (".env.example", ".env")]:
        src_path = os.path.join(project_dir, src)
        dst_path = os.path.join(project_dir, dst)
        if not os.path.exists(dst_path) and os.path.exists(src_path):
            shutil.copy(src_path, dst_path)
            print(f"Created {dst} from {src}")
        elif os.path.exists(dst_path):
            print(f"{dst} already exists, skipping.")

    # 8. Print instructions
    if is_windows:
        activate_cmd = r".\.venv\Scripts\activate"
    else:
        activate_cmd = "source .venv/bin/activate"

    print()
    print("=" * 50)
    print("  telegram-gemini-relay installation complete!")
    print("=" * 50)
    print()
    print("Next steps:")
    print("  1. Edit config.yaml - list the allowed Telegram usernames")
    print("  2. Edit .env - set your credentials:")
    print("       TELEGRAM_BOT_TOKEN=...")
    print("       GOOGLE_AI_API_KEY=...")
    print("  3. Activate the virtual environment:")
    print(f"       {activate_cmd}")
    print("  4. Start the bot:")
    print("       python -m gemini_relay")
    print("  5. Or check config:")
    print("       python -m gemini_relay config-check")
    print()


if __name__ == "__main__":
    main()
