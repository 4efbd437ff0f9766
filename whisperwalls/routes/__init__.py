from .system import system_bp
from .auth import auth_bp
from .account import account_bp
from .whispers import whispers_bp

__all__ = ['system_bp', 'auth_bp', 'account_bp', 'whispers_bp']
