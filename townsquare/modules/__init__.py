"""
Modules package initialization.
This package contains all the functional modules of the application.
"""

from townsquare.modules import auth
from townsquare.modules import user_management
from townsquare.modules import follows
from townsquare.modules import posts
from townsquare.modules import notifications
from townsquare.modules import admin
