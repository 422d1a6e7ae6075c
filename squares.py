from app import create_app, db
from app.models import User, Pool, Square, AxisAssignment, Score, PoolEvent
import os

app = create_app(os.getenv('FLASK_CONFIG') or 'development')

@app.shell_context_processor
def make_shell_context():
    return {
        'db': db,
        'User': User,
        'Pool': Pool,
        'Square': Square,
        'AxisAssignment': AxisAssignment,
        'Score': Score,
        'PoolEvent': PoolEvent,
    }

if __name__ == '__main__':
    app.run(debug=True)
