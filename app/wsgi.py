from app.rijschool import create_app

app = create_app()
