from .nda import nda_bp

def register_blueprints(app):
    app.register_blueprint(nda_bp)
