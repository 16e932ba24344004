from fastapi import FastAPI
from fastapi.responses import JSONResponse, PlainTextResponse

app = FastAPI(title="Anime Bot Liveness", version="0.1.0")


@app.get("/", response_class=PlainTextResponse)
def root():
    return "Bot is running!"


@app.get("/healthz")
def healthz():
    return JSONResponse({"ok": True})
