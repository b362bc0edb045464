"""
Shared fixtures: an in-memory SQLite session and a small movies table.
"""

import os
import sys

import pandas as pd
import pytest

sys.path.append(os.path.dirname(os.path.dirname(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))))

from analytics.movie_explorer.config import Config
from analytics.movie_explorer.database import connect
from analytics.movie_explorer.dataset_loader import load_movies_frame
from analytics.movie_explorer.schema_inspector import MOVIES_SCHEMA


def movie(name, rating, genre, score, votes, budget, gross, runtime, company, director, star, writer, year=1980):
    return {
        "budget": budget,
        "company": company,
        "country": "United States",
        "director": director,
        "genre": genre,
        "gross": gross,
        "name": name,
        "rating": rating,
        "released": f"{year}",
        "runtime": runtime,
        "score": score,
        "star": star,
        "votes": votes,
        "writer": writer,
        "year": year,
    }


MOVIE_ROWS = [
    movie("The Shining", "R", "Drama", 8.4, 927000, 19000000, 46998772, 146, "Warner Bros.", "Stanley Kubrick", "Jack Nicholson", "Stephen King"),
    movie("The Blue Lagoon", "R", "Adventure", 5.8, 65000, 4500000, 58853106, 104, "Columbia Pictures", "Randal Kleiser", "Brooke Shields", "Henry De Vere Stacpoole"),
    movie("Star Wars: Episode V", "PG", "Action", 8.7, 1200000, 18000000, 538375067, 124, "Lucasfilm", "Irvin Kershner", "Mark Hamill", "Leigh Brackett"),
    movie("Airplane!", "PG", "Comedy", 7.7, 221000, 3500000, 83453539, 88, "Paramount Pictures", "Jim Abrahams", "Robert Hays", "Jim Abrahams"),
    movie("Caddyshack", "R", "Comedy", 7.3, 108000, 6000000, 39846344, 98, "Orion Pictures", "Harold Ramis", "Chevy Chase", "Brian Doyle-Murray"),
    movie("Friday the 13th", "R", "Horror", 6.4, 123000, 550000, 39754601, 95, "Paramount Pictures", "Sean S. Cunningham", "Betsy Palmer", "Victor Miller"),
    movie("The Blues Brothers", "R", "Action", 7.9, 188000, 27000000, 115229890, 133, "Universal Pictures", "John Landis", "John Belushi", "Dan Aykroyd"),
    movie("Raging Bull", "R", "Biography", 8.2, 330000, 18000000, 23402427, 129, "Chartoff-Winkler Productions", "Martin Scorsese", "Robert De Niro", "Jake LaMotta"),
    movie("Superman II", "PG", "Action", 6.8, 101000, 54000000, 108185706, 127, "Dovemead Films", "Richard Lester", "Gene Hackman", "Jerry Siegel"),
    movie("The Long Riders", "R", "Biography", 7.0, 10000, 10000000, 15795189, 100, "United Artists", "Walter Hill", "David Carradine", "Bill Bryden"),
    movie("The Fog", "R", "Horror", 6.8, 68000, 0, 21378361, 89, "AVCO Embassy Pictures", "John Carpenter", "Adrienne Barbeau", "John Carpenter"),
    movie("Heaven's Gate", "R", "Western", None, 16000, 44000000, 3484331, 219, "United Artists", "Michael Cimino", "Kris Kristofferson", "Michael Cimino"),
]


def movies_frame(rows) -> pd.DataFrame:
    """Frame with all 15 movie columns; unspecified fields are null."""
    empty = {c: None for c in MOVIES_SCHEMA.column_names}
    return pd.DataFrame([{**empty, **row} for row in rows], columns=MOVIES_SCHEMA.column_names)


@pytest.fixture
def sqlite_config():
    return Config(database=":memory:", driver="sqlite", session_mode="read_write")


@pytest.fixture
def session(sqlite_config):
    with connect(sqlite_config) as s:
        yield s


@pytest.fixture
def load_movies(session):
    """Load partial movie rows into the session's movies table and return its proxy."""
    def _load(rows):
        load_movies_frame(session, movies_frame(rows))
        return session.table("movies")
    return _load


@pytest.fixture
def movies(load_movies):
    return load_movies(MOVIE_ROWS)


@pytest.fixture
def movies_csv(tmp_path):
    """The sample movies written as a CSV file."""
    path = tmp_path / "movies.csv"
    movies_frame(MOVIE_ROWS).to_csv(path, index=False)
    return path
