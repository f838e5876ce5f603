from app.storerate import create_app

app = create_app()
