"""Configure pytest for the Jobcraft API project."""
import os
import sys
from pathlib import Path

# =============================================================================
# Test Environment Configuration
# =============================================================================
# Set environment for tests BEFORE any imports so app.main's module-level
# create_app() never picks up real credentials from the developer's shell.
os.environ["RAILWAY_ENVIRONMENT"] = "test"
os.environ["STRIPE_SECRET_KEY"] = ""
os.environ["AUTH_JWT_SECRET"] = "test-identity-secret"
os.environ.setdefault("JOBCRAFT_DB_PATH", str(Path(__file__).parent / "data" / "test.db"))

# Add project root so top-level packages import without installation
project_root = Path(__file__).parent
if str(project_root) not in sys.path:
    sys.path.insert(0, str(project_root))
