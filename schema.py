"""
Table definitions and in-place schema evolution.

Every table owns its CREATE statement, the ADD COLUMN statements that bring
older databases up to date, and its indexes. All statements are idempotent
so they can run on every process start and from migrate_schema.py.
"""

import logging

logger = logging.getLogger(__name__)


# =====================================================
# MASTER TABLES
# =====================================================

HOTELS = {
    'name': 'hotels',
    'create': """
        CREATE TABLE IF NOT EXISTS hotels (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            destination TEXT NOT NULL,
            category INTEGER DEFAULT 3,
            hotel_type TEXT DEFAULT 'Hotel',
            supplier_id INTEGER,
            price DECIMAL(10,2) DEFAULT 0,
            address TEXT,
            location TEXT DEFAULT '',
            phone TEXT,
            contact_person TEXT DEFAULT '',
            email TEXT,
            website TEXT DEFAULT '',
            map_link TEXT DEFAULT '',
            amenities TEXT[] DEFAULT '{}',
            meal_plan_options TEXT[] DEFAULT '{}',
            checkin_time TEXT DEFAULT '',
            checkout_time TEXT DEFAULT '',
            gallery TEXT[] DEFAULT '{}',
            notes TEXT DEFAULT '',
            icon_url TEXT,
            status TEXT DEFAULT 'Active',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('hotel_type', "TEXT DEFAULT 'Hotel'"),
        ('supplier_id', 'INTEGER'),
        ('location', "TEXT DEFAULT ''"),
        ('contact_person', "TEXT DEFAULT ''"),
        ('website', "TEXT DEFAULT ''"),
        ('map_link', "TEXT DEFAULT ''"),
        ('amenities', "TEXT[] DEFAULT '{}'"),
        ('meal_plan_options', "TEXT[] DEFAULT '{}'"),
        ('checkin_time', "TEXT DEFAULT ''"),
        ('checkout_time', "TEXT DEFAULT ''"),
        ('gallery', "TEXT[] DEFAULT '{}'"),
        ('notes', "TEXT DEFAULT ''"),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_hotels_name ON hotels(name)',
        'CREATE INDEX IF NOT EXISTS idx_hotels_destination ON hotels(destination)',
        'CREATE INDEX IF NOT EXISTS idx_hotels_status ON hotels(status)',
        'CREATE INDEX IF NOT EXISTS idx_hotels_supplier_id ON hotels(supplier_id)',
    ],
}

HOTEL_RATES = {
    'name': 'hotel_rates',
    'create': """
        CREATE TABLE IF NOT EXISTS hotel_rates (
            id SERIAL PRIMARY KEY,
            hotel_id INTEGER NOT NULL REFERENCES hotels(id) ON DELETE CASCADE,
            from_date DATE NOT NULL,
            to_date DATE NOT NULL,
            room_type TEXT NOT NULL,
            meal_plan TEXT NOT NULL DEFAULT 'APAI',
            single DECIMAL(10,2) DEFAULT 0,
            double DECIMAL(10,2) DEFAULT 0,
            triple DECIMAL(10,2) DEFAULT 0,
            quad DECIMAL(10,2) DEFAULT 0,
            cwb DECIMAL(10,2) DEFAULT 0,
            cnb DECIMAL(10,2) DEFAULT 0,
            season_name TEXT DEFAULT '',
            cost_price DECIMAL(10,2) DEFAULT 0,
            selling_price DECIMAL(10,2) DEFAULT 0,
            currency TEXT DEFAULT 'INR',
            extra_adult DECIMAL(10,2) DEFAULT 0,
            extra_child DECIMAL(10,2) DEFAULT 0,
            weekend_rate_diff DECIMAL(10,2) DEFAULT 0,
            weekday_rate_diff DECIMAL(10,2) DEFAULT 0,
            notes TEXT DEFAULT '',
            status TEXT DEFAULT 'Active',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('season_name', "TEXT DEFAULT ''"),
        ('cost_price', 'DECIMAL(10,2) DEFAULT 0'),
        ('selling_price', 'DECIMAL(10,2) DEFAULT 0'),
        ('currency', "TEXT DEFAULT 'INR'"),
        ('extra_adult', 'DECIMAL(10,2) DEFAULT 0'),
        ('extra_child', 'DECIMAL(10,2) DEFAULT 0'),
        ('weekend_rate_diff', 'DECIMAL(10,2) DEFAULT 0'),
        ('weekday_rate_diff', 'DECIMAL(10,2) DEFAULT 0'),
        ('notes', "TEXT DEFAULT ''"),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_hotel_rates_hotel_id ON hotel_rates(hotel_id)',
        'CREATE INDEX IF NOT EXISTS idx_hotel_rates_dates ON hotel_rates(from_date, to_date)',
    ],
}

SUPPLIERS = {
    'name': 'suppliers',
    'create': """
        CREATE TABLE IF NOT EXISTS suppliers (
            id SERIAL PRIMARY KEY,
            city TEXT DEFAULT '',
            company_name TEXT NOT NULL,
            contact_person_name TEXT DEFAULT '',
            phone_number TEXT DEFAULT '',
            whatsapp_number TEXT DEFAULT '',
            email TEXT DEFAULT '',
            address TEXT DEFAULT '',
            country TEXT DEFAULT '',
            gst_number TEXT DEFAULT '',
            pan_number TEXT DEFAULT '',
            bank_name TEXT DEFAULT '',
            bank_account_number TEXT DEFAULT '',
            bank_ifsc_swift TEXT DEFAULT '',
            payment_terms TEXT DEFAULT '',
            contract_start_date DATE,
            contract_end_date DATE,
            notes TEXT DEFAULT '',
            status TEXT DEFAULT 'Active',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('contact_person_name', "TEXT DEFAULT ''"),
        ('phone_number', "TEXT DEFAULT ''"),
        ('whatsapp_number', "TEXT DEFAULT ''"),
        ('country', "TEXT DEFAULT ''"),
        ('gst_number', "TEXT DEFAULT ''"),
        ('pan_number', "TEXT DEFAULT ''"),
        ('bank_name', "TEXT DEFAULT ''"),
        ('bank_account_number', "TEXT DEFAULT ''"),
        ('bank_ifsc_swift', "TEXT DEFAULT ''"),
        ('payment_terms', "TEXT DEFAULT ''"),
        ('contract_start_date', 'DATE'),
        ('contract_end_date', 'DATE'),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_suppliers_company ON suppliers(company_name)',
        'CREATE INDEX IF NOT EXISTS idx_suppliers_email ON suppliers(email)',
    ],
}

LEAD_SOURCE_DETAILED = {
    'name': 'lead_source_detailed',
    'create': """
        CREATE TABLE IF NOT EXISTS lead_source_detailed (
            id SERIAL PRIMARY KEY,
            source_name TEXT NOT NULL UNIQUE,
            source_type TEXT NOT NULL,
            platform_channel TEXT NOT NULL,
            default_campaign_tag TEXT DEFAULT '',
            default_lead_type TEXT DEFAULT '',
            default_sales_team TEXT DEFAULT '',
            default_owner TEXT DEFAULT '',
            round_robin_active BOOLEAN DEFAULT FALSE,
            auto_whatsapp_template_id TEXT DEFAULT '',
            auto_email_template_id TEXT DEFAULT '',
            utm_source TEXT DEFAULT '',
            utm_medium TEXT DEFAULT '',
            utm_campaign TEXT DEFAULT '',
            avg_response_time_mins DECIMAL(10,2) DEFAULT 0,
            success_rate_percent DECIMAL(5,2) DEFAULT 0,
            avg_cpa DECIMAL(10,2) DEFAULT 0,
            status TEXT DEFAULT 'Active',
            notes TEXT DEFAULT '',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('default_campaign_tag', "TEXT DEFAULT ''"),
        ('default_lead_type', "TEXT DEFAULT ''"),
        ('default_sales_team', "TEXT DEFAULT ''"),
        ('default_owner', "TEXT DEFAULT ''"),
        ('round_robin_active', 'BOOLEAN DEFAULT FALSE'),
        ('auto_whatsapp_template_id', "TEXT DEFAULT ''"),
        ('auto_email_template_id', "TEXT DEFAULT ''"),
        ('utm_source', "TEXT DEFAULT ''"),
        ('utm_medium', "TEXT DEFAULT ''"),
        ('utm_campaign', "TEXT DEFAULT ''"),
        ('avg_response_time_mins', 'DECIMAL(10,2) DEFAULT 0'),
        ('success_rate_percent', 'DECIMAL(5,2) DEFAULT 0'),
        ('avg_cpa', 'DECIMAL(10,2) DEFAULT 0'),
        ('notes', "TEXT DEFAULT ''"),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_lead_source_detailed_source_type ON lead_source_detailed(source_type)',
        'CREATE INDEX IF NOT EXISTS idx_lead_source_detailed_status ON lead_source_detailed(status)',
    ],
}

LEAD_TYPE_MASTER = {
    'name': 'lead_type_master',
    'create': """
        CREATE TABLE IF NOT EXISTS lead_type_master (
            id SERIAL PRIMARY KEY,
            lead_type_name TEXT NOT NULL UNIQUE,
            code TEXT DEFAULT '',
            description TEXT DEFAULT '',
            default_destination_handling TEXT DEFAULT 'Flexible',
            default_sales_team TEXT DEFAULT '',
            default_owner TEXT DEFAULT '',
            default_workflow_name TEXT DEFAULT '',
            default_whatsapp_template_id TEXT DEFAULT '',
            default_email_template_id TEXT DEFAULT '',
            followup_rule_days INTEGER DEFAULT 3,
            status TEXT DEFAULT 'Active',
            notes TEXT DEFAULT '',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('code', "TEXT DEFAULT ''"),
        ('default_destination_handling', "TEXT DEFAULT 'Flexible'"),
        ('default_workflow_name', "TEXT DEFAULT ''"),
        ('default_whatsapp_template_id', "TEXT DEFAULT ''"),
        ('default_email_template_id', "TEXT DEFAULT ''"),
        ('followup_rule_days', 'INTEGER DEFAULT 3'),
        ('notes', "TEXT DEFAULT ''"),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_lead_type_master_code ON lead_type_master(code)',
        'CREATE INDEX IF NOT EXISTS idx_lead_type_master_status ON lead_type_master(status)',
    ],
}

MEAL_PLANS = {
    'name': 'meal_plans',
    'create': """
        CREATE TABLE IF NOT EXISTS meal_plans (
            id SERIAL PRIMARY KEY,
            code TEXT NOT NULL,
            description TEXT DEFAULT '',
            notes TEXT DEFAULT '',
            status TEXT DEFAULT 'Active',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW(),
            name TEXT,
            destination TEXT,
            meal_type TEXT,
            price DECIMAL(10,2)
        )
    """,
    'columns': [
        ('code', "TEXT NOT NULL DEFAULT ''"),
        ('description', "TEXT DEFAULT ''"),
        ('notes', "TEXT DEFAULT ''"),
        # legacy columns kept for older screens
        ('name', 'TEXT'),
        ('destination', 'TEXT'),
        ('meal_type', 'TEXT'),
        ('price', 'DECIMAL(10,2)'),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_meal_plans_code ON meal_plans(code)',
    ],
}

NOTES_INCLUSIONS = {
    'name': 'itinerary_notes_inclusions',
    'create': """
        CREATE TABLE IF NOT EXISTS itinerary_notes_inclusions (
            id SERIAL PRIMARY KEY,
            title TEXT NOT NULL,
            description TEXT NOT NULL,
            category TEXT NOT NULL,
            status TEXT DEFAULT 'Active',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_itinerary_notes_inclusions_category ON itinerary_notes_inclusions(category)',
        'CREATE INDEX IF NOT EXISTS idx_itinerary_notes_inclusions_status ON itinerary_notes_inclusions(status)',
    ],
}

PRICING_TAX_RULES = {
    'name': 'pricing_tax_rules',
    'create': """
        CREATE TABLE IF NOT EXISTS pricing_tax_rules (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            rate_type TEXT NOT NULL,
            linked_module TEXT NOT NULL,
            markup_type TEXT NOT NULL,
            markup_value DECIMAL(10,2) DEFAULT 0,
            tax_type TEXT NOT NULL,
            tax_percentage DECIMAL(5,2) DEFAULT 0,
            calculation_formula TEXT DEFAULT '',
            season_start_date DATE,
            season_end_date DATE,
            notes TEXT DEFAULT '',
            status TEXT DEFAULT 'Active',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('calculation_formula', "TEXT DEFAULT ''"),
        ('season_start_date', 'DATE'),
        ('season_end_date', 'DATE'),
        ('notes', "TEXT DEFAULT ''"),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_pricing_tax_rules_module ON pricing_tax_rules(linked_module)',
        'CREATE INDEX IF NOT EXISTS idx_pricing_tax_rules_status ON pricing_tax_rules(status)',
    ],
}

DESTINATIONS = {
    'name': 'destinations',
    'create': """
        CREATE TABLE IF NOT EXISTS destinations (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            status TEXT DEFAULT 'Active',
            state TEXT DEFAULT '',
            country TEXT DEFAULT '',
            description TEXT DEFAULT '',
            best_season TEXT DEFAULT '',
            default_currency TEXT DEFAULT '',
            timezone TEXT DEFAULT '',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('state', "TEXT DEFAULT ''"),
        ('country', "TEXT DEFAULT ''"),
        ('description', "TEXT DEFAULT ''"),
        ('best_season', "TEXT DEFAULT ''"),
        ('default_currency', "TEXT DEFAULT ''"),
        ('timezone', "TEXT DEFAULT ''"),
    ],
    'indexes': [],
}

ROOM_TYPES = {
    'name': 'room_types',
    'create': """
        CREATE TABLE IF NOT EXISTS room_types (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL UNIQUE,
            max_occupancy INTEGER DEFAULT 2,
            bed_type TEXT DEFAULT '',
            description TEXT DEFAULT '',
            notes TEXT DEFAULT '',
            status TEXT DEFAULT 'Active',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [],
    'indexes': [],
}

TRANSFERS = {
    'name': 'transfers',
    'create': """
        CREATE TABLE IF NOT EXISTS transfers (
            id SERIAL PRIMARY KEY,
            query_name TEXT NOT NULL,
            destination TEXT NOT NULL,
            price DECIMAL(10,2) DEFAULT 0,
            content TEXT DEFAULT '',
            photo_url TEXT DEFAULT '',
            status TEXT DEFAULT 'Active',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('supplier_id', 'INTEGER'),
        ('vehicle_type', "TEXT DEFAULT ''"),
        ('distance_duration', "TEXT DEFAULT ''"),
        ('rate_type', "TEXT DEFAULT 'fixed'"),
        ('base_rate', 'DECIMAL(10,2) DEFAULT 0'),
        ('extra_km_rate', 'DECIMAL(10,2) DEFAULT 0'),
        ('waiting_charge', 'DECIMAL(10,2) DEFAULT 0'),
        ('notes', "TEXT DEFAULT ''"),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_transfers_destination ON transfers(destination)',
    ],
}


# =====================================================
# FINANCE TABLES
# =====================================================

VENDOR_PAYOUTS = {
    'name': 'vendor_payout_master',
    'create': """
        CREATE TABLE IF NOT EXISTS vendor_payout_master (
            id SERIAL PRIMARY KEY,
            vendor_name VARCHAR(255) NOT NULL,
            supplier_id INTEGER,
            booking_reference VARCHAR(100),
            trip_id VARCHAR(100),
            service_type VARCHAR(50),
            payable_amount NUMERIC(10,2) NOT NULL,
            payment_due_date DATE NOT NULL,
            payment_status VARCHAR(20) DEFAULT 'Pending',
            payment_date DATE,
            payment_mode VARCHAR(50),
            transaction_reference VARCHAR(255),
            bank_name VARCHAR(255),
            upi_id VARCHAR(255),
            notes TEXT,
            created_by VARCHAR(255),
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
    """,
    'columns': [],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_vendor_payout_vendor ON vendor_payout_master(vendor_name)',
        'CREATE INDEX IF NOT EXISTS idx_vendor_payout_status ON vendor_payout_master(payment_status)',
        'CREATE INDEX IF NOT EXISTS idx_vendor_payout_due ON vendor_payout_master(payment_due_date)',
        'CREATE INDEX IF NOT EXISTS idx_vendor_payout_trip ON vendor_payout_master(trip_id)',
    ],
}

EXPENSES = {
    'name': 'expense_tracking_master',
    'create': """
        CREATE TABLE IF NOT EXISTS expense_tracking_master (
            id SERIAL PRIMARY KEY,
            expense_category VARCHAR(100) NOT NULL,
            trip_id VARCHAR(100),
            booking_reference VARCHAR(100),
            expense_amount NUMERIC(10,2) NOT NULL,
            payment_status VARCHAR(20) DEFAULT 'Pending',
            payment_date DATE,
            vendor_name VARCHAR(255),
            vendor_payout_id INTEGER,
            description TEXT,
            notes TEXT,
            receipt_url TEXT,
            created_by VARCHAR(255),
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
    """,
    'columns': [],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_expense_category ON expense_tracking_master(expense_category)',
        'CREATE INDEX IF NOT EXISTS idx_expense_trip ON expense_tracking_master(trip_id)',
        'CREATE INDEX IF NOT EXISTS idx_expense_status ON expense_tracking_master(payment_status)',
    ],
}

PROFIT_CALCULATIONS = {
    'name': 'profit_calculation_master',
    'create': """
        CREATE TABLE IF NOT EXISTS profit_calculation_master (
            id SERIAL PRIMARY KEY,
            trip_id VARCHAR(100) NOT NULL,
            booking_reference VARCHAR(100),
            customer_name VARCHAR(255),
            total_revenue NUMERIC(10,2) DEFAULT 0,
            total_expenses NUMERIC(10,2) DEFAULT 0,
            total_vendor_payouts NUMERIC(10,2) DEFAULT 0,
            gross_profit NUMERIC(10,2) DEFAULT 0,
            profit_margin NUMERIC(5,2) DEFAULT 0,
            calculation_date DATE DEFAULT CURRENT_DATE,
            status VARCHAR(20) DEFAULT 'Draft',
            notes TEXT,
            created_by VARCHAR(255),
            created_at TIMESTAMP DEFAULT NOW(),
            updated_at TIMESTAMP DEFAULT NOW()
        )
    """,
    'columns': [],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_profit_trip ON profit_calculation_master(trip_id)',
        'CREATE INDEX IF NOT EXISTS idx_profit_status ON profit_calculation_master(status)',
    ],
}


# =====================================================
# ITINERARY TABLES
# =====================================================

ITINERARIES = {
    'name': 'itineraries',
    'create': """
        CREATE TABLE IF NOT EXISTS itineraries (
            id SERIAL PRIMARY KEY,
            name TEXT NOT NULL,
            destinations TEXT DEFAULT '',
            start_date DATE,
            end_date DATE,
            adults INTEGER DEFAULT 1,
            children INTEGER DEFAULT 0,
            cover_photo TEXT,
            package_terms JSONB DEFAULT '[]'::jsonb,
            notes TEXT DEFAULT '',
            status TEXT DEFAULT 'Draft',
            created_by TEXT DEFAULT 'Travloger.in',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('cover_photo', 'TEXT'),
        ('package_terms', "JSONB DEFAULT '[]'::jsonb"),
        ('notes', "TEXT DEFAULT ''"),
        ('status', "TEXT DEFAULT 'Draft'"),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_itineraries_name ON itineraries(name)',
    ],
}

ITINERARY_DAYS = {
    'name': 'itinerary_days',
    'create': """
        CREATE TABLE IF NOT EXISTS itinerary_days (
            id SERIAL PRIMARY KEY,
            itinerary_id INTEGER NOT NULL REFERENCES itineraries(id) ON DELETE CASCADE,
            day_number INTEGER NOT NULL,
            title TEXT DEFAULT '',
            date DATE,
            location TEXT DEFAULT '',
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('location', "TEXT DEFAULT ''"),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_itinerary_days_itinerary ON itinerary_days(itinerary_id, day_number)',
    ],
}

ITINERARY_EVENTS = {
    'name': 'itinerary_events',
    'create': """
        CREATE TABLE IF NOT EXISTS itinerary_events (
            id SERIAL PRIMARY KEY,
            day_id INTEGER NOT NULL REFERENCES itinerary_days(id) ON DELETE CASCADE,
            title TEXT NOT NULL,
            subtitle TEXT DEFAULT '',
            description TEXT DEFAULT '',
            event_data JSONB DEFAULT '{}'::jsonb,
            sort_order INTEGER DEFAULT 0,
            created_at TIMESTAMPTZ DEFAULT NOW(),
            updated_at TIMESTAMPTZ DEFAULT NOW()
        )
    """,
    'columns': [
        ('event_data', "JSONB DEFAULT '{}'::jsonb"),
        ('sort_order', 'INTEGER DEFAULT 0'),
    ],
    'indexes': [
        'CREATE INDEX IF NOT EXISTS idx_itinerary_events_day ON itinerary_events(day_id, sort_order)',
    ],
}


# Creation order matters for the foreign keys
TABLES = [
    HOTELS,
    HOTEL_RATES,
    SUPPLIERS,
    LEAD_SOURCE_DETAILED,
    LEAD_TYPE_MASTER,
    MEAL_PLANS,
    NOTES_INCLUSIONS,
    PRICING_TAX_RULES,
    DESTINATIONS,
    ROOM_TYPES,
    TRANSFERS,
    VENDOR_PAYOUTS,
    EXPENSES,
    PROFIT_CALCULATIONS,
    ITINERARIES,
    ITINERARY_DAYS,
    ITINERARY_EVENTS,
]

DEFAULT_LEAD_TYPES = [
    ('Group Trip', 'GROUP', 'Fixed departure group tours with set itinerary and dates',
     'Fixed', 'Group Tour Workflow', 2),
    ('FIT (Custom Trip)', 'FIT',
     'Fully Independent Traveler - Customized itinerary per customer requirement',
     'Flexible', 'Custom Tour Workflow', 3),
    ('Corporate', 'CORP', 'Corporate bookings, MICE, team outings, and business travel',
     'Flexible', 'Corporate Workflow', 1),
]


def table_statements(table):
    """All idempotent statements for one table, in execution order."""
    statements = [table['create']]
    for column, definition in table['columns']:
        statements.append(
            f"ALTER TABLE {table['name']} ADD COLUMN IF NOT EXISTS {column} {definition}"
        )
    statements.extend(table['indexes'])
    return statements


def seed_lead_types(cursor):
    """Insert the default lead types into an empty lead_type_master. Returns rows inserted."""
    cursor.execute("SELECT COUNT(*) FROM lead_type_master")
    if cursor.fetchone()[0]:
        return 0
    for name, code, description, handling, workflow, followup in DEFAULT_LEAD_TYPES:
        cursor.execute(
            """INSERT INTO lead_type_master (lead_type_name, code, description,
               default_destination_handling, default_workflow_name, followup_rule_days, status)
               VALUES (%s, %s, %s, %s, %s, %s, 'Active')
               ON CONFLICT (lead_type_name) DO NOTHING""",
            (name, code, description, handling, workflow, followup)
        )
    return len(DEFAULT_LEAD_TYPES)


def ensure_schema(conn):
    """Create or evolve every table, seed defaults and commit. Returns the table names touched."""
    cursor = conn.cursor()
    touched = []
    try:
        for table in TABLES:
            for statement in table_statements(table):
                cursor.execute(statement)
            touched.append(table['name'])
        seeded = seed_lead_types(cursor)
        if seeded:
            logger.info(f"Seeded {seeded} default lead types")
        conn.commit()
    except Exception:
        conn.rollback()
        raise
    finally:
        cursor.close()
    logger.info(f"Schema ready: {len(touched)} tables")
    return touched
