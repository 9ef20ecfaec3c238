from flask import Flask, jsonify
from flask_login import LoginManager
from flask_mail import Mail
from flask_migrate import Migrate
from models import db, User
from routes import register_blueprints
from services.esign import SadiqClient

def create_app(config_object='config.Config'):
    app = Flask(__name__)
    app.config.from_object(config_object)

    # Initialize extensions
    db.init_app(app)
    migrate = Migrate(app, db)

    login_manager = LoginManager()
    login_manager.init_app(app)

    @login_manager.user_loader
    def load_user(user_id):
        return db.session.get(User, int(user_id))

    @login_manager.unauthorized_handler
    def unauthorized():
        return jsonify({'error': 'Authentication required'}), 401

    # Initialize Flask-Mail
    mail = Mail()
    mail.init_app(app)

    # One provider client (and token cache) per app, shared by all requests
    sadiq_client = SadiqClient.from_config(app.config)
    app.extensions['sadiq_client'] = sadiq_client
    app.extensions['sadiq_token_cache'] = sadiq_client.token_cache

    # Register blueprints
    register_blueprints(app)

    return app

if __name__ == '__main__':
    app = create_app()
    with app.app_context():
        db.create_all()
    app.run(host='0.0.0.0', port=5005, debug=True)
