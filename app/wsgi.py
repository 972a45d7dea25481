from app.shaderhouse import create_app

app = create_app()
