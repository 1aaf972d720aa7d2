import uvicorn

from marketplace.core.registrar import register_app

app = register_app()


if __name__ == '__main__':
    uvicorn.run('marketplace.main:app', host='127.0.0.1', port=8000, reload=False)
