# backend/wsgi.py
from retailpos import create_app, start_alert_scheduler

app = create_app()
start_alert_scheduler(app)

if __name__ == "__main__":
    app.run(threaded=True)
