# Load PyMySQL as the MySQLdb driver before Django initializes the database backend
import pymysql

pymysql.install_as_MySQLdb()
