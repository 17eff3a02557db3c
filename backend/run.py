import sys
from pathlib import Path

from dotenv import load_dotenv

# Ensure we can import skinquiz when run from a checkout
current_dir = Path(__file__).parent
sys.path.insert(0, str(current_dir))


def main():
    load_dotenv(current_dir / ".env")

    import uvicorn
    from skinquiz.config import settings

    print("Starting Skin Archetype Consultation...")
    print(f"Server: http://{settings.HOST}:{settings.PORT}")
    print(f"API Docs: http://{settings.HOST}:{settings.PORT}/docs")
    print("=" * 50)

    try:
        uvicorn.run(
            "skinquiz.main:app",
            host=settings.HOST,
            port=settings.PORT,
            reload=settings.RELOAD,
            log_level=settings.LOG_LEVEL.lower()
        )
    except Exception as e:
        print(f"Error: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
