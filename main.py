"""Run the shop server, optionally with the offline-bill sync agent alongside it.

Env:
  HOST, PORT, FLASK_DEBUG       Flask runner settings
  SHOP_SYNC_AGENT_AUTO_START    1 to spawn sync_agent.py pointed at this server
"""
import os
import subprocess
import sys

from shop_server import app

AGENT_SCRIPT = os.path.join(os.path.dirname(os.path.abspath(__file__)), 'sync_agent.py')


def launch_sync_agent(port):
    """Spawn the sync agent for a server on ``port``; None when disabled or already running."""
    if os.getenv('SHOP_SYNC_AGENT_AUTO_START', '0') != '1':
        return None
    # the debug reloader imports this module twice; only the parent spawns the agent
    if os.environ.get('WERKZEUG_RUN_MAIN') == 'true':
        return None
    agent_env = dict(os.environ)
    agent_env.setdefault('SHOP_SERVER_URL', f'http://127.0.0.1:{port}')
    app.logger.info('Starting sync agent against %s', agent_env['SHOP_SERVER_URL'])
    return subprocess.Popen([sys.executable, AGENT_SCRIPT], env=agent_env)


def main():
    port = int(os.getenv('PORT', '5000'))
    agent = launch_sync_agent(port)
    try:
        app.run(host=os.getenv('HOST', '0.0.0.0'), port=port, debug=os.getenv('FLASK_DEBUG', '0') == '1')
    finally:
        if agent is not None:
            agent.terminate()
            agent.wait(timeout=5)


if __name__ == '__main__':
    main()
