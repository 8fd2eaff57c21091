"""
Sejenak loyalty service entry point.
"""
import os
import sys
import traceback

print("[Sejenak] Starting loyalty service")

config_name = os.getenv('FLASK_ENV', 'production')
print(f"[Sejenak] Config: {config_name}")
print(f"[Sejenak] DATABASE_URL: {'set' if os.getenv('DATABASE_URL') else 'NOT SET'}")
print(f"[Sejenak] SENDGRID_API_KEY: {'set' if os.getenv('SENDGRID_API_KEY') else 'NOT SET'}")

try:
    from sejenak import create_app
    app = create_app(config_name)
    print(f"[Sejenak] Routes: {len(list(app.url_map.iter_rules()))}")
except Exception as e:
    print(f"[Sejenak] FATAL ERROR during app creation: {e}")
    traceback.print_exc()
    sys.exit(1)

if __name__ == '__main__':
    app.run(
        host='0.0.0.0',
        port=int(os.getenv('PORT', 5000)),
        debug=os.getenv('FLASK_ENV') == 'development'
    )
