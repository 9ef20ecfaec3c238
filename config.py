import os
from datetime import timedelta

class Config:
    # Environment
    FLASK_ENV = os.getenv('FLASK_ENV', 'development')

    SECRET_KEY = os.getenv('SECRET_KEY', 'dev-secret-key-change-in-production')
    SQLALCHEMY_DATABASE_URI = os.getenv('DATABASE_URL', 'sqlite:///linktech.db')
    SQLALCHEMY_TRACK_MODIFICATIONS = False
    PERMANENT_SESSION_LIFETIME = timedelta(minutes=30)

    # Base URL used in links inside emails
    APP_BASE_URL = os.getenv('APP_BASE_URL', 'https://linktech.app')

    # Mail settings (Flask-Mail, used for notification emails)
    MAIL_SERVER = os.getenv('MAIL_SERVER', 'smtp.gmail.com')
    MAIL_PORT = int(os.getenv('MAIL_PORT', 587))
    MAIL_USE_TLS = os.getenv('MAIL_USE_TLS', 'True').lower() == 'true'
    MAIL_USERNAME = os.getenv('MAIL_USERNAME')
    MAIL_PASSWORD = os.getenv('MAIL_PASSWORD')
    MAIL_DEFAULT_SENDER = (os.getenv('MAIL_SENDER_NAME', 'LinkTech'), os.getenv('MAIL_SENDER_EMAIL', 'noreply@linktech.app'))
    MAIL_MAX_EMAILS = None
    MAIL_ASCII_ATTACHMENTS = False

    # SendGrid configuration (transactional email + NDA fallback delivery)
    SENDGRID_API_KEY = os.getenv('SENDGRID_API_KEY')
    SENDGRID_SENDER = os.getenv('SENDGRID_SENDER', 'nda@linktech.app')
    MAIL_TIMEOUT = int(os.getenv('MAIL_TIMEOUT', 30))

    # Sadiq e-signature provider
    SADIQ_BASE_URL = os.getenv('SADIQ_BASE_URL', 'https://sandbox-api.sadq-sa.com')
    SADIQ_EMAIL = os.getenv('SADIQ_EMAIL')
    SADIQ_PASSWORD = os.getenv('SADIQ_PASSWORD')
    SADIQ_ACCOUNT_ID = os.getenv('SADIQ_ACCOUNT_ID')
    SADIQ_ACCOUNT_SECRET = os.getenv('SADIQ_ACCOUNT_SECRET')
    SADIQ_CLIENT_AUTH = os.getenv('SADIQ_CLIENT_AUTH')  # base64 "client:secret" for the token endpoint
    SADIQ_WEBHOOK_URL = os.getenv('SADIQ_WEBHOOK_URL')
    SADIQ_WEBHOOK_ID = os.getenv('SADIQ_WEBHOOK_ID')  # skip webhook lookup when already registered
    SADIQ_WEBHOOK_SECRET = os.getenv('SADIQ_WEBHOOK_SECRET', '')
    SADIQ_TIMEOUT = int(os.getenv('SADIQ_TIMEOUT', 30))
    SADIQ_UPLOAD_TIMEOUT = int(os.getenv('SADIQ_UPLOAD_TIMEOUT', 60))

    # NDA workflow
    NDA_PROVIDER_MAX_ATTEMPTS = int(os.getenv('NDA_PROVIDER_MAX_ATTEMPTS', 2))
    NDA_PROVIDER_RETRY_BACKOFF = float(os.getenv('NDA_PROVIDER_RETRY_BACKOFF', 1.0))
    NDA_LOCK_TIMEOUT = float(os.getenv('NDA_LOCK_TIMEOUT', 150))
    NDA_INVITATION_VALID_DAYS = int(os.getenv('NDA_INVITATION_VALID_DAYS', 30))


class TestConfig(Config):
    TESTING = True
    FLASK_ENV = 'testing'
    SECRET_KEY = 'test-secret-key'
    SQLALCHEMY_DATABASE_URI = 'sqlite:///:memory:'
    MAIL_SUPPRESS_SEND = True

    SADIQ_EMAIL = 'integration@linktech.test'
    SADIQ_PASSWORD = 'test-password'
    SADIQ_ACCOUNT_ID = 'test-account'
    SADIQ_ACCOUNT_SECRET = 'test-account-secret'
    SADIQ_WEBHOOK_ID = 'test-webhook-id'
    SADIQ_WEBHOOK_SECRET = 'test-webhook-secret'

    NDA_PROVIDER_RETRY_BACKOFF = 0
    NDA_LOCK_TIMEOUT = 5
