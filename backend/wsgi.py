from storeline import create_app

app = create_app()
