import os

import uvicorn


def main() -> None:
    uvicorn.run(
        "quote_hub.main:app",
        host=os.getenv("QUOTE_HUB_HOST", "127.0.0.1"),
        port=int(os.getenv("QUOTE_HUB_PORT", "8000")),
    )


if __name__ == "__main__":
    main()
