import uvicorn


def main():
    uvicorn.run(
        "promoreel.api.main:app",
        host="127.0.0.1",
        port=8000,
        reload=True,
    )
