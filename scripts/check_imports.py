import sys
import os

print('Python', sys.version)
# Ensure the project root is on sys.path so 'import quiz_server.*' works reliably.
repo_root = os.path.abspath(os.path.join(os.path.dirname(__file__), '..'))
if repo_root not in sys.path:
    sys.path.insert(0, repo_root)
print('Added to sys.path:', repo_root)
try:
    from quiz_server.services.ai.orchestrator import build_orchestrator_from_env
    from quiz_server.services.game_engine import GameEngine
    from quiz_server.utils.env import ensure_env_loaded
    print('Imports OK')
except Exception as e:
    print('Import error', e)
    raise

ensure_env_loaded()
orch = build_orchestrator_from_env()
print('Configured AI providers:', [a.name for a in orch.adapters] or 'none')
print('Engine policy:', GameEngine(orchestrator=orch).policy)
