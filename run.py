"""
Campus Records dev launcher.
Run: python run.py

Seeds a local SQLite database on first run, applies the section backfill,
then serves main:app with auto-reload. HOST and PORT override the bind
address.
"""
import os, subprocess, sys

os.chdir(os.path.dirname(os.path.abspath(__file__)))

host = os.getenv("HOST", "127.0.0.1")
port = os.getenv("PORT", "8000")
local_db = not os.getenv("DATABASE_URL")

print("=" * 52)
print("  Campus Records")
print("=" * 52)

if local_db and not os.path.exists("campus_records.db"):
    print("\nNo local database found, loading demo data...")
    subprocess.run([sys.executable, "seed.py"], check=True)

print("\nAssigning legacy section labels...")
subprocess.run([sys.executable, "migrate.py"], check=True)

print(f"\nServing on http://{host}:{port}  (Ctrl+C to stop)\n")
subprocess.run([sys.executable, "-m", "uvicorn", "main:app",
                "--reload", "--host", host, "--port", port])
