#!/usr/bin/env python3
"""
Create the PostgreSQL schema for race results, venues and user accounts.
"""
import os

import psycopg2
from dotenv import load_dotenv


ENUMS = {
    "gender": ("MALE", "FEMALE", "OTHER"),
    "athlete_status": ("ACTIVE", "INACTIVE", "RETIRED", "SUSPENDED"),
    "competition_status": ("SCHEDULED", "IN_PROGRESS", "COMPLETED", "CANCELLED"),
    "competition_level": ("INTERNATIONAL", "NATIONAL", "REGIONAL", "STATE", "LOCAL", "CLUB"),
    "discipline_level": ("SPORT", "DISCIPLINE", "SUB_DISCIPLINE", "EVENT_TYPE"),
    "race_type": ("SPRINT", "DISTANCE", "MARATHON", "TECHNICAL", "RELAY"),
    "course_type": ("FLATWATER", "OCEAN", "RIVER", "SURF", "HARBOR"),
    "venue_type": ("INDOOR", "OUTDOOR", "SEMI_COVERED"),
    "result_status": ("PROVISIONAL", "UNOFFICIAL", "OFFICIAL"),
}

TABLES = [
    ("people", """
        CREATE TABLE IF NOT EXISTS people (
            person_id SERIAL PRIMARY KEY,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            first_name VARCHAR(100) NOT NULL,
            last_name VARCHAR(100) NOT NULL,
            display_name VARCHAR(200),
            date_of_birth DATE,
            gender gender,
            nationality VARCHAR(3),
            email VARCHAR(255),
            phone VARCHAR(50),
            street VARCHAR(255),
            city VARCHAR(100),
            state VARCHAR(100),
            postal_code VARCHAR(20),
            country VARCHAR(100),
            is_verified BOOLEAN DEFAULT FALSE,
            notes TEXT
        )
    """),
    ("organizations", """
        CREATE TABLE IF NOT EXISTS organizations (
            organization_id SERIAL PRIMARY KEY,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            name VARCHAR(255) NOT NULL,
            abbreviation VARCHAR(20),
            type VARCHAR(50),
            email VARCHAR(255),
            phone VARCHAR(50),
            website VARCHAR(500),
            street VARCHAR(255),
            city VARCHAR(100),
            state VARCHAR(100),
            postal_code VARCHAR(20),
            country VARCHAR(100),
            is_active BOOLEAN DEFAULT TRUE,
            description TEXT
        )
    """),
    ("venues", """
        CREATE TABLE IF NOT EXISTS venues (
            venue_id SERIAL PRIMARY KEY,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            name VARCHAR(255) NOT NULL,
            short_name VARCHAR(100),
            venue_type venue_type,
            street VARCHAR(255),
            city VARCHAR(100),
            state VARCHAR(100),
            postal_code VARCHAR(20),
            country VARCHAR(100),
            latitude REAL,
            longitude REAL,
            elevation REAL,
            capacity INTEGER,
            website VARCHAR(500),
            is_active BOOLEAN DEFAULT TRUE,
            description TEXT
        )
    """),
    ("disciplines", """
        CREATE TABLE IF NOT EXISTS disciplines (
            discipline_id SERIAL PRIMARY KEY,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            parent_id INTEGER REFERENCES disciplines(discipline_id),
            level discipline_level NOT NULL,
            name VARCHAR(255) NOT NULL,
            code VARCHAR(50) UNIQUE NOT NULL,
            short_name VARCHAR(50),
            race_type race_type,
            course_type course_type,
            standard_distance REAL,
            distance_unit VARCHAR(10),
            description TEXT,
            is_active BOOLEAN DEFAULT TRUE,
            sort_order INTEGER
        )
    """),
    ("categories", """
        CREATE TABLE IF NOT EXISTS categories (
            category_id SERIAL PRIMARY KEY,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            name VARCHAR(100) NOT NULL,
            code VARCHAR(50) UNIQUE NOT NULL,
            short_name VARCHAR(20),
            gender gender,
            min_age INTEGER,
            max_age INTEGER,
            description TEXT,
            is_active BOOLEAN DEFAULT TRUE,
            sort_order INTEGER
        )
    """),
    ("athletes", """
        CREATE TABLE IF NOT EXISTS athletes (
            athlete_id SERIAL PRIMARY KEY,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            person_id INTEGER NOT NULL REFERENCES people(person_id),
            athlete_number VARCHAR(50),
            status athlete_status NOT NULL DEFAULT 'ACTIVE',
            primary_discipline_id INTEGER REFERENCES disciplines(discipline_id),
            home_organization_id INTEGER REFERENCES organizations(organization_id),
            website VARCHAR(500),
            instagram VARCHAR(100),
            facebook VARCHAR(100),
            twitter VARCHAR(100),
            biography TEXT,
            is_public BOOLEAN NOT NULL DEFAULT TRUE,
            is_verified BOOLEAN DEFAULT FALSE
        )
    """),
    ("competitions", """
        CREATE TABLE IF NOT EXISTS competitions (
            competition_id SERIAL PRIMARY KEY,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            name VARCHAR(255) NOT NULL,
            short_name VARCHAR(100),
            year INTEGER,
            start_date DATE,
            end_date DATE,
            venue_id INTEGER REFERENCES venues(venue_id),
            organizer_id INTEGER REFERENCES organizations(organization_id),
            level competition_level NOT NULL DEFAULT 'LOCAL',
            status competition_status NOT NULL DEFAULT 'SCHEDULED',
            website VARCHAR(500),
            promotion_provider VARCHAR(100),
            promotion_url VARCHAR(500),
            weather_conditions TEXT,
            water_conditions TEXT,
            description TEXT,
            is_public BOOLEAN DEFAULT TRUE
        )
    """),
    ("events", """
        CREATE TABLE IF NOT EXISTS events (
            event_id SERIAL PRIMARY KEY,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            competition_id INTEGER NOT NULL REFERENCES competitions(competition_id) ON DELETE CASCADE,
            discipline_id INTEGER REFERENCES disciplines(discipline_id),
            category_id INTEGER REFERENCES categories(category_id),
            venue_id INTEGER REFERENCES venues(venue_id),
            name VARCHAR(255) NOT NULL,
            description TEXT,
            scheduled_start_time TIMESTAMP,
            actual_start_time TIMESTAMP,
            status VARCHAR(50),
            distance REAL,
            weather_conditions TEXT,
            water_conditions TEXT,
            temperature REAL,
            wind_speed REAL,
            wind_direction VARCHAR(10)
        )
    """),
    ("performances", """
        CREATE TABLE IF NOT EXISTS performances (
            performance_id SERIAL PRIMARY KEY,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            athlete_id INTEGER NOT NULL REFERENCES athletes(athlete_id),
            discipline_id INTEGER REFERENCES disciplines(discipline_id),
            category_id INTEGER REFERENCES categories(category_id),
            time_milliseconds INTEGER,
            adjusted_time_milliseconds INTEGER,
            calculated_overall_position INTEGER,
            calculated_division_position INTEGER,
            calculated_gender_position INTEGER,
            ranking_points REAL,
            difficulty_multiplier REAL,
            performance_rating REAL,
            is_personal_best BOOLEAN DEFAULT FALSE,
            is_season_best BOOLEAN DEFAULT FALSE,
            is_podium_finish BOOLEAN DEFAULT FALSE,
            weather_conditions TEXT,
            water_conditions TEXT,
            field_strength INTEGER,
            calculation_version VARCHAR(20),
            verified BOOLEAN DEFAULT FALSE,
            verified_by VARCHAR(255),
            verification_date TIMESTAMP
        )
    """),
    ("results", """
        CREATE TABLE IF NOT EXISTS results (
            result_id SERIAL PRIMARY KEY,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now(),
            athlete_id INTEGER NOT NULL REFERENCES athletes(athlete_id),
            event_id INTEGER NOT NULL REFERENCES events(event_id) ON DELETE CASCADE,
            performance_id INTEGER REFERENCES performances(performance_id),
            overall_place VARCHAR(20),
            division_place VARCHAR(20),
            raw_name VARCHAR(255),
            bib_number VARCHAR(20),
            raw_age_group VARCHAR(50),
            raw_gender VARCHAR(20),
            raw_category VARCHAR(100),
            raw_time VARCHAR(50),
            raw_craft_type VARCHAR(100),
            source_event_id VARCHAR(100),
            source_race_name VARCHAR(255),
            source_url VARCHAR(500),
            scraped_at TIMESTAMP,
            source_system VARCHAR(50),
            result_status result_status NOT NULL DEFAULT 'PROVISIONAL',
            data_quality_flags TEXT,
            athlete_verified BOOLEAN DEFAULT FALSE
        )
    """),
    ("users", """
        CREATE TABLE IF NOT EXISTS users (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            email VARCHAR(255) UNIQUE NOT NULL,
            password_hash VARCHAR(255) NOT NULL,
            first_name VARCHAR(100),
            last_name VARCHAR(100),
            tier VARCHAR(20) NOT NULL DEFAULT 'free' CHECK (tier IN ('free', 'premium', 'pro')),
            is_active BOOLEAN NOT NULL DEFAULT TRUE,
            created_at TIMESTAMP NOT NULL DEFAULT now(),
            updated_at TIMESTAMP NOT NULL DEFAULT now()
        )
    """),
    ("user_activity", """
        CREATE TABLE IF NOT EXISTS user_activity (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            activity_type VARCHAR(50) NOT NULL CHECK (activity_type IN
                ('athlete_view', 'result_view', 'comparison_view', 'virtual_series_create')),
            resource_id VARCHAR(100),
            metadata TEXT,
            created_at TIMESTAMP NOT NULL DEFAULT now()
        )
    """),
    ("user_athlete_links", """
        CREATE TABLE IF NOT EXISTS user_athlete_links (
            id UUID PRIMARY KEY DEFAULT gen_random_uuid(),
            user_id UUID NOT NULL REFERENCES users(id) ON DELETE CASCADE,
            athlete_id INTEGER NOT NULL REFERENCES athletes(athlete_id) ON DELETE CASCADE,
            is_owner BOOLEAN NOT NULL DEFAULT FALSE,
            is_verified BOOLEAN NOT NULL DEFAULT FALSE,
            claimed_at TIMESTAMP NOT NULL DEFAULT now(),
            verified_at TIMESTAMP
        )
    """),
]

INDEXES = [
    "CREATE INDEX IF NOT EXISTS user_activity_user_date_idx ON user_activity(user_id, created_at)",
    "CREATE INDEX IF NOT EXISTS user_athlete_links_user_athlete_idx ON user_athlete_links(user_id, athlete_id)",
    "CREATE INDEX IF NOT EXISTS idx_results_athlete ON results(athlete_id)",
    "CREATE INDEX IF NOT EXISTS idx_results_event ON results(event_id)",
    "CREATE INDEX IF NOT EXISTS idx_events_competition ON events(competition_id)",
    "CREATE INDEX IF NOT EXISTS idx_athletes_person ON athletes(person_id)",
    "CREATE INDEX IF NOT EXISTS idx_competitions_website ON competitions(website)",
]


def _create_enum(cur, name, values):
    labels = ", ".join("'" + v + "'" for v in values)
    cur.execute(f"""
        DO $$ BEGIN
            CREATE TYPE {name} AS ENUM ({labels});
        EXCEPTION WHEN duplicate_object THEN NULL;
        END $$;
    """)


def create_tables(conn):
    """Create the database schema"""
    with conn.cursor() as cur:
        # gen_random_uuid() lives in pgcrypto before PostgreSQL 13
        cur.execute("CREATE EXTENSION IF NOT EXISTS pgcrypto")
        for name, values in ENUMS.items():
            _create_enum(cur, name, values)
        for _name, ddl in TABLES:
            cur.execute(ddl)
        for ddl in INDEXES:
            cur.execute(ddl)
    conn.commit()


def main():
    load_dotenv()
    database_url = os.environ.get('DATABASE_URL')
    if not database_url:
        print("DATABASE_URL environment variable not set")
        return 1

    conn = None
    try:
        conn = psycopg2.connect(database_url)
        print("Connected to PostgreSQL database")
        create_tables(conn)
        print(f"Schema ready: {len(ENUMS)} enum types, {len(TABLES)} tables, {len(INDEXES)} indexes")
        return 0
    except psycopg2.Error as e:
        print(f"Error creating schema: {e}")
        return 1
    finally:
        if conn is not None:
            conn.close()


if __name__ == "__main__":
    raise SystemExit(main())
