from app.promptdesk import create_app

app = create_app()
