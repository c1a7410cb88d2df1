from app.caixa import create_app

app = create_app()
