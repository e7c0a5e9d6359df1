#!/usr/bin/env python3
"""
Quick start script for FullTank.
This script writes a starter config.yaml and .env.
"""

import shutil
import sys
from pathlib import Path


def create_config():
    """Create config.yaml from the bundled example."""
    example_path = Path(__file__).parent / "config.yaml.example"
    config_path = Path("config.yaml")
    if config_path.exists():
        print("⚠️  config.yaml already exists!")
        response = input("Overwrite? (y/N): ")
        if response.lower() != 'y':
            print("Keeping existing config.yaml")
            return False

    shutil.copyfile(example_path, config_path)
    print("✅ Created config.yaml")
    return True


def create_env():
    """Create a basic .env file."""
    env_content = """# Environment variables for FullTank
# These override values in config.yaml

ENABLE_NSW=false
ENABLE_WA=true
ENABLE_QLD=false
ENABLE_SA=false
ENABLE_VIC_STUB=false
ENABLE_FUELPRICE_FALLBACK=false

# NSW FuelCheck (https://api.nsw.gov.au/)
NSW_CLIENT_ID=
NSW_CLIENT_SECRET=

# Fuel Prices Direct subscriber tokens
QLD_SUBSCRIBER_TOKEN=
SA_SAFPIS_TOKEN=

# fuelprice.io, used for VIC when the VIC feed is disabled
FUELPRICE_API_KEY=
"""

    env_path = Path(".env")
    if env_path.exists():
        print("⚠️  .env already exists!")
        response = input("Overwrite? (y/N): ")
        if response.lower() != 'y':
            print("Keeping existing .env")
            return False

    with open(env_path, 'w') as f:
        f.write(env_content)

    print("✅ Created .env")
    return True


def main():
    """Main quick start function."""
    print("🚀 FullTank - Quick Start")
    print("=" * 50)
    print()

    # Check if dependencies are installed
    try:
        import flask
        import httpx
        import schedule
        import yaml
    except ImportError as e:
        print("❌ Missing dependencies!")
        print(f"   Error: {e}")
        print()
        print("Please install dependencies first:")
        print("   pip install -r requirements.txt")
        sys.exit(1)

    print("✅ Dependencies installed")
    print()

    print("Setting up configuration files...")
    print()

    create_config()
    create_env()

    print()
    print("=" * 50)
    print("Setup complete! 🎉")
    print()
    print("Next steps:")
    print()
    print("1. Enable the sources you have credentials for in .env")
    print()
    print("2. (Optional) Seed demo stations:")
    print("   python scripts/seed_demo_data.py")
    print()
    print("3. Run the app:")
    print("   fulltank --web                          # HTTP API on :5000")
    print("   fulltank --once --q Perth --state WA    # One query as JSON")
    print("   fulltank                                # Scheduled alert checks")
    print()
    print("4. Try the API at: http://localhost:5000/api/stations?q=Docklands")
    print()


if __name__ == '__main__':
    main()
