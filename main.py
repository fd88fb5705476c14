from beu_result import create_app
from beu_result.config import load_settings

settings = load_settings()
app = create_app(settings)

if __name__ == '__main__':
    app.run(host=settings.HOST, port=settings.PORT, debug=settings.DEBUG)
