from actor_deploy.cli import app

app()
