from codeduel import db


class Challenge(db.Model):
    __tablename__ = 'challenge'
    id = db.Column(db.String(32), primary_key=True)
    title = db.Column(db.String(128), nullable=False)
    difficulty = db.Column(db.String(32), nullable=False, default='Beginner')
    points = db.Column(db.Integer, nullable=False, default=100)
    description = db.Column(db.Text, nullable=False, default='')
    requirements = db.Column(db.Text, nullable=False, default='')
    starter_code = db.Column(db.Text, nullable=False, default='')

    def to_dict(self):
        return {
            'id': self.id,
            'title': self.title,
            'difficulty': self.difficulty,
            'points': self.points,
            'description': self.description,
            'requirements': self.requirements,
            'starter_code': self.starter_code,
        }


DEFAULT_CHALLENGES = [
    {
        'id': '1',
        'title': 'Python Variables Challenge',
        'difficulty': 'Beginner',
        'points': 100,
        'description': 'Create variables and perform basic operations.',
        'requirements': 'Define three variables and return their sum',
        'starter_code': (
            "# Create three variables: a, b, c\n"
            "# Assign them values: 5, 10, 15\n"
            "# Return their sum\n"
            "\n"
            "def solve_challenge():\n"
            "    # Your code here\n"
            "    return \"Hello, World!\"\n"
        ),
    },
    {
        'id': '2',
        'title': 'Functions & Loops Challenge',
        'difficulty': 'Intermediate',
        'points': 200,
        'description': 'Write a function that processes a list.',
        'requirements': 'Create a function that doubles each number in a list',
        'starter_code': (
            "# Write a function that takes a list of numbers\n"
            "# and returns a new list with each number doubled\n"
            "\n"
            "def solve_challenge():\n"
            "    # Your code here\n"
            "    return []\n"
        ),
    },
    {
        'id': '3',
        'title': 'Data Structures Challenge',
        'difficulty': 'Advanced',
        'points': 300,
        'description': 'Work with dictionaries and complex data structures.',
        'requirements': 'Create a dictionary and manipulate its values',
        'starter_code': (
            "# Create a dictionary and perform operations on it\n"
            "\n"
            "def solve_challenge():\n"
            "    # Your code here\n"
            "    return {}\n"
        ),
    },
]


def seed_challenges() -> int:
    """Insert the built-in challenges that are missing. Returns the number added."""
    added = 0
    for data in DEFAULT_CHALLENGES:
        if db.session.get(Challenge, data['id']) is None:
            db.session.add(Challenge(**data))
            added += 1
    db.session.commit()
    return added
