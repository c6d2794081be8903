"""Entry point: uvicorn main:app (or python main.py)."""
from voucher_engine.main import app

if __name__ == "__main__":
    import uvicorn

    uvicorn.run("voucher_engine.main:app", host="0.0.0.0", port=8000, reload=True)
