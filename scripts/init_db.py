import sys
import os

# Ajouter le dossier parent au path pour importer 'procurement'
sys.path.append(os.path.dirname(os.path.dirname(os.path.abspath(__file__))))

from sqlalchemy import inspect
from sqlalchemy.engine import make_url

from procurement.config import get_settings
from procurement.database import engine, init_db


def main():
    settings = get_settings()
    url = make_url(settings.database_url)
    print(f"🚀 Création des tables du moteur de propositions sur {url.render_as_string(hide_password=True)}")

    try:
        init_db(engine)
    except Exception as e:
        print(f"❌ Erreur lors de l'initialisation : {e}")
        sys.exit(1)

    tables = sorted(inspect(engine).get_table_names())
    print(f"✅ {len(tables)} table(s) : {', '.join(tables)}")


if __name__ == "__main__":
    main()
